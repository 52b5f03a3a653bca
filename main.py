from app import create_app
import os

app = create_app()

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = app.config["UPLOAD_SETTINGS"].port
    debug = os.getenv("FLASK_DEBUG", "false").lower() in ("1", "true", "yes", "y")
    app.run(host=host, port=port, debug=debug)
