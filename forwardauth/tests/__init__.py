"""Tests for :mod:`forwardauth`."""
