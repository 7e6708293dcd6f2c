from cyclestock import create_app

app = create_app()
