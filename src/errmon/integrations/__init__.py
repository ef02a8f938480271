"""Capture hooks that turn runtime signals into breadcrumbs and reports."""
