"""HTTP blueprints: auth, health, users."""
