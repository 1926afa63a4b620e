"""
Main entry point for the netsweep web API

Serves the JSON API over the LAN sweep and the port range scanner.
Use `netsweep` (netsweep/main.py) for the terminal front end.
"""

# Step 1: Load environment variables from .env file if available
import os

from dotenv import load_dotenv

load_dotenv()

# Step 2: Import the app factory once the environment is in place
from netsweep.web_interface import create_app

app = create_app()

# Step 3: Define the application entry point with Flask app run parameters
if __name__ == "__main__":
    # - HOST defaults to loopback; set HOST=0.0.0.0 to expose the API
    # - debug mode is determined by environment variable
    debug_mode = os.environ.get('FLASK_ENV') == 'development'
    port = int(os.environ.get('PORT', 4000))
    app.run(host=os.environ.get('HOST', '127.0.0.1'), port=port, debug=debug_mode)
