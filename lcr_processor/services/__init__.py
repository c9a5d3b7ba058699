"""Domain services: notifications, payments, role assignment and the submitter workflows."""
