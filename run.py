"""Local development entry point.

Usage:
    python run.py

Provider webhooks need a public URL; expose the port with a tunnel and
point the Stripe / YuKassa dashboards at /api/webhooks/stripe and
/api/webhooks/yukassa.
"""

import os

from dotenv import load_dotenv

load_dotenv()  # Load .env before the config classes read the environment

from paycore import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=int(os.environ.get("PORT", 5001)))
