"""Test package marker so pytest can resolve ``tests.unit`` and ``tests.e2e`` modules."""
