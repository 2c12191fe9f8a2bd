"""Test package; ``src`` is put on the path by the pytest ``pythonpath`` setting."""
