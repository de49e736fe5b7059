"""Graph store client, shared models and errors."""
