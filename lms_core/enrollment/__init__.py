"""Course enrollment lifecycle (``states`` and ``service``)."""
