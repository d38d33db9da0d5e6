"""Email module -- templates, campaigns, Resend delivery, and lifecycle automations."""
