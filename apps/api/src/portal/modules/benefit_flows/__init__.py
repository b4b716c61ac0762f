"""
Benefit Flows Module

Session-backed multi-step wizards for dental benefit applications and
renewals:
1. Flow state persisted in the browser session between requests
2. Linear step guarding: no step can be skipped or reached out of order
3. Flow variants per family, context and type of application
   (adult, family, children; delegates leave the wizard)
4. Section completeness checks gating progression and final submission

API Endpoints (per flow family, see router):
- POST /{lang}/flows/{family} - Start a flow
- GET/POST .../steps/{step} - Load / save a step
- GET .../review - Review the application
- POST .../submit - Submit the application
- POST .../exit - Exit the application
- POST .../children, GET/POST .../children/{child_id}/steps/{step},
  POST .../children/{child_id}/remove - Manage children

Flow State Lifecycle:
- Created on start, updated on every step save
- Removed on submission, on exit, and 20 minutes after the last save
"""

from .router import router

__all__ = ["router"]
