"""
Kernel layer

Foundational pieces shared by every engine:
- Content entities and progress records (immutable pydantic models)
- Typed error taxonomy
- Event bus for UI notifications
"""
