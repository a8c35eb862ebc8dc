"""Change feed broker, row-change capture and the list reconciler."""
