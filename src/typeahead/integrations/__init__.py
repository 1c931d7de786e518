"""Built-in integrations. Each module exposes a ``build_integration(settings)`` factory."""
