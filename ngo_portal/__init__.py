"""
Client for the NGO monthly reporting portal.
"""
