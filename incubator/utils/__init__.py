"""
Validation and amount helpers shared by the services.
"""
