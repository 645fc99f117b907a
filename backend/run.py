import os

from chessclub import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # SocketIO server so /ws works in dev; PORT matches the old Node server's env var
    socketio.run(app, host=os.environ.get('HOST', '127.0.0.1'), port=int(os.environ.get('PORT', '5000')), debug=True)
