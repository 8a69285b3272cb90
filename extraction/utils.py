import os
from datetime import datetime


def write_log(log_path, message):
    """Append message to log file"""
    if log_path:
        os.makedirs(os.path.dirname(log_path), exist_ok=True)
        with open(log_path, 'a') as f:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
            f.write(f"[{timestamp}] {message}\n")


def read_log(task):
    """Return the task's log content, or '' when no log exists yet"""
    log_path = task.get_log_path()
    if not os.path.exists(log_path):
        return ''
    with open(log_path, 'r') as f:
        return f.read()
