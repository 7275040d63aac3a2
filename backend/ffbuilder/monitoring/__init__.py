"""
Live observation of jobs: event model, broadcaster and the WebSocket /
monitoring endpoints.
"""
