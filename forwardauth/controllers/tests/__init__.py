"""Tests for :mod:`forwardauth.controllers`."""
