"""
API response schemas that are not tied to the agent domain (health probes).
"""
