from flask_wtf import CSRFProtect

# Shared instance so JSON endpoints can be exempted with ``csrf.exempt``.
csrf = CSRFProtect()
