"""Stylesheets bundled with :mod:`xml_pipeline`."""
