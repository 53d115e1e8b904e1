"""Infrastructure: storage backends, persistence, and their exceptions."""
