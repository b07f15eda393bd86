"""
Test suite for greenlens.

- Unit tests for models, services, configuration and the CLI
- Integration tests for the capture, upload and gallery flow
"""
