"""Stream the result of a SQL query from Firebird into a delimited text file."""

__version__ = "0.1.0"
