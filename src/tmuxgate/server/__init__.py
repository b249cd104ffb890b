"""HTTP server module for tmuxgate.

Builds the FastAPI application: the access gate, the session and pane
endpoints, and the server-sent event stream for live pane updates.
"""
