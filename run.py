from streamapp import create_app, db, socketio
from streamapp.core.models import User, Stream, Category

app = create_app()

@app.shell_context_processor
def make_shell_context():
    return {'db': db, 'User': User, 'Stream': Stream, 'Category': Category}

if __name__ == '__main__':
    socketio.run(app, debug=True)
