"""
HTTP / WebSocket API
"""
