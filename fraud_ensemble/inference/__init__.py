"""Request path: tier orchestration for one transaction."""
