"""
Command-line interface for rendering certificates from JSON files.

Available commands:
- render: export a certificate to PDF or PNG through the fallback chain
- preview: write the composed HTML document
- presets: list page size presets

Example usage:
    certrender render certificate.json --format pdf --output out.pdf
"""

__version__ = "0.1.0"
