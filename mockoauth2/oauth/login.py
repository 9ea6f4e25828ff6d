"""
Interactive login form for the authorization endpoint.
"""

from html import escape

from mockoauth2.oauth.callbacks import Login
from mockoauth2.oauth.exceptions import invalid_request
from mockoauth2.oauth.http import OAuth2HttpRequest

LOGIN_FORM = """<!DOCTYPE html>
<html>
<head><title>Mock OAuth2 Server Sign-in</title></head>
<body>
<h1>Mock OAuth2 Server Sign-in</h1>
<form method="post" action="{action}">
  <label>Username <input type="text" name="username" required autofocus></label><br>
  <label>Optional claims (JSON)<br>
    <textarea name="claims" rows="10" cols="60" placeholder='{{"acr": "Level4"}}'></textarea>
  </label><br>
  <button type="submit">Sign-in</button>
</form>
</body>
</html>
"""


class LoginRequestHandler:
    """Renders the login form and parses its submission.

    Any username is accepted.
    """

    def login_html(self, request: OAuth2HttpRequest) -> str:
        return LOGIN_FORM.format(action=escape(request.url))

    def login_submit(self, request: OAuth2HttpRequest) -> Login:
        """
        Parse a submitted login form.

        Raises:
            ParseError: If no username was submitted
        """
        form = request.form_parameters()
        username = form.get("username", "").strip()
        if not username:
            raise invalid_request("Missing required parameter: username")
        return Login(username=username, claims=form.get("claims") or None)
