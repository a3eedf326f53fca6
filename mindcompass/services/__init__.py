"""MindCompass services.

- triage_service: scoring, crisis detection, classification, fusion, routing
- llm_service: provider-neutral text generation for the classifier
- checkin_service: anonymous profiles, streaks and saved assessments
- outreach_service: safety plans and tel:/sms: handoffs

Aliases never appear in logs or events; services log hash_pii(alias).
"""
