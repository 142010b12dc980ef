"""Application pages behind the login flow."""
