"""Pure-Python libraries with no database dependencies."""
