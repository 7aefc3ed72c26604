"""
Authentication against App Engine style backends.

Identity token (from a credential provider) -> session cookie (from the app's
login endpoint) -> Cookie header on every data request.
"""
