"""Room and live-session services: banks, rooms, exams, scoring, rankings.

This package contains the domain logic imported by HTTP routes and socket
handlers, keeping transport concerns separated from the quiz mechanics.
"""
