"""Google Calendar synchronization service for the practice-management app."""
