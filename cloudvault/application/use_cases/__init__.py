"""Use cases orchestrating services, storage, and repositories."""
