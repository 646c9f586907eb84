"""Server actions: role-gated operations returning ActionResult envelopes."""
