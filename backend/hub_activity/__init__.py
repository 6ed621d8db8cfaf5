"""Hub activity service: unread badges, notification feed and push registration."""
