from excel_dashboard.cli import app

if __name__ == "__main__":
    app()
