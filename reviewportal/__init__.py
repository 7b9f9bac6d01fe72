"""Associate consultant review portal.

To create the Flask app:
    from reviewportal.flask_app import create_app
"""
