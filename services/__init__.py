"""FastAPI services of the exam platform; each subpackage is mounted by `main.py`."""

__all__ = ["exam"]
