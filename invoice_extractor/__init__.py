"""Invoice extraction and confidence scoring on Amazon Bedrock."""

__version__ = "0.1.0"
