"""Tests for :mod:`forwardauth.services`."""
