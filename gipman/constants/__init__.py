"""This package contains constants shared across the project.

`standalone` holds plain values; `local` holds values computed from installed package metadata.
"""
