"""Tagged file browser backend."""
