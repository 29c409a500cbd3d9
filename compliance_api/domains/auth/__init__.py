"""Request authentication: bearer JWT decoding and role checks."""
