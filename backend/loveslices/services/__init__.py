"""
Services Module

Domain logic behind the API routers:
- pairing: response submission and written-loveslice creation
- conversations: conversation lifecycle and spoken loveslices
- journal: search index over both loveslice kinds
"""
