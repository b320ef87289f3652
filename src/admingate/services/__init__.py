"""Business services (sessions, rate limiting, audit, auth glue, accounts)."""
