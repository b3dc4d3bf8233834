"""Deploy, compile and delete staging for local metadata."""
