"""CSV reading, value encoding and statement construction."""
