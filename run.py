# run.py
from storefront.config import Config
from storefront.main import create_app

app = create_app(Config)

if __name__ == "__main__":
    app.run(
        debug=Config.DEBUG,
        host=Config.FLASK_RUN_HOST,
        port=Config.FLASK_RUN_PORT,
    )
