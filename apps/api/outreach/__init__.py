"""Recruitment outreach API: Gmail connection and threaded candidate email."""
