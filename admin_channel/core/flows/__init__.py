"""Handler flows, one module per capability."""
