"""Core business logic for user management.

Module Structure:
    - authorization.py : create/update authorization rules (pure Python)
    - user_workflow.py : create/update orchestration and outcome selection
    - dispatcher.py    : review generation + notification side effects
    - reviews.py       : default review schedule
    - mailer.py        : notification emails and transports
    - validators.py    : form/JSON payload validation
    - audit.py         : signed audit trail of user events
    - rbac.py          : session-backed principal helpers (needs Flask)

Import explicitly when needed:
    from reviewportal.core.user_workflow import UserWorkflow, Redirect, Render
    from reviewportal.core.authorization import authorize, Principal, Action
"""
