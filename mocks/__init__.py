"""
Mock servers for case backend development and testing.

Available mocks:
- chat_api_mock: Ethora chat REST API mock (users, chat rooms, access grants)
"""

__version__ = "1.0.0"
