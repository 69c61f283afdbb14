from flask import Blueprint, Flask, abort, current_app, jsonify, request
from flask_cors import CORS
from pydantic import ValidationError
from flask_limiter import RateLimitExceeded
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from datetime import date
import logging
import sys

from auth import (
    LOGIN_SCOPE, client_ip, generate_token, limiter, login_limit, require_auth,
    reset_login_attempts, throttled_message, verify_password,
)
from config import Config, fallback_jwt_secret
from database import connect_database
from layout import drop_task, layout_week
from models import (
    ApplyTemplateRequest, BlogPostCreate, BlogPostUpdate, EventCreate, EventUpdate,
    LoginRequest, MoveTaskRequest, PulseNoteCreate, ScheduledTaskCreate,
    ScheduledTaskUpdate, TemplateCreate, TemplateTaskBody, VoteRequest,
    WeeklyGoalCreate, WeeklyGoalUpdate,
)
from scheduling import apply_template, create_recurring_task, create_scheduled_task, delete_scheduled_task
from timeutils import add_days, format_date, get_week_start, parse_date

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')

DEFAULT_NOTES_LIMIT = 50
# Columns that must never be overwritten with NULL by a partial update
NOT_NULL_COLUMNS = {
    'title', 'content', 'date', 'start_time', 'end_time', 'type', 'color', 'completed', 'published',
}


def get_db():
    return current_app.extensions['database']


def parse_body(model):
    data = request.get_json(silent=True)
    return model.model_validate(data if data is not None else {})


def update_values(body):
    values = body.model_dump(exclude_unset=True)
    values = {k: v for k, v in values.items() if not (k in NOT_NULL_COLUMNS and v is None)}
    for flag in ('completed', 'published'):
        if flag in values:
            values[flag] = 1 if values[flag] else 0
    return values


def update_row(table, row_id, values, touch=False):
    db = get_db()
    assignments = [f"{column} = {db.ph}" for column in values]
    if touch:
        assignments.append("updated_at = CURRENT_TIMESTAMP")
    if not assignments:
        return 0
    sql = f"UPDATE {table} SET {', '.join(assignments)} WHERE id = {db.ph}"
    return db.run(sql, [*values.values(), row_id]).rows_affected


def date_range_args():
    start = request.args.get('startDate')
    end = request.args.get('endDate')
    if not start or not end:
        abort(400, description='startDate and endDate are required')
    try:
        parse_date(start)
        parse_date(end)
    except ValueError:
        abort(400, description='startDate and endDate must be dates in YYYY-MM-DD format')
    return start, end


# Routes

@api.route('/health', methods=['GET'])
def health():
    return jsonify({"ok": True, "database": get_db().backend})


@api.route('/auth/login', methods=['POST'])
@limiter.shared_limit(login_limit, scope=LOGIN_SCOPE)
def login():
    ip = client_ip()
    data = parse_body(LoginRequest)
    if not verify_password(data.password, current_app.config['PASSWORD']):
        logger.warning(f"Failed login attempt from {ip}")
        return jsonify({"error": "Invalid password"}), 401

    reset_login_attempts()
    expires_in = current_app.config['TOKEN_EXPIRES_IN']
    token = generate_token(current_app.config['JWT_SECRET'], expires_in)
    logger.info(f"Successful login from {ip}")
    return jsonify({"success": True, "token": token, "expiresIn": expires_in})


@api.route('/auth/verify', methods=['GET'])
@require_auth
def verify():
    return jsonify({"valid": True})


# Scheduled tasks

@api.route('/scheduled-tasks', methods=['GET'])
@require_auth
def get_tasks():
    start, end = date_range_args()
    db = get_db()
    tasks = db.query(
        f"SELECT * FROM scheduled_tasks WHERE date >= {db.ph} AND date <= {db.ph} ORDER BY date, start_time",
        (start, end),
    )
    return jsonify(tasks)


@api.route('/scheduled-tasks', methods=['POST'])
@require_auth
def create_task():
    data = parse_body(ScheduledTaskCreate)
    task = data.model_dump()

    if data.recurrence_rule:
        parent_id, created = create_recurring_task(get_db(), task)
        return jsonify({**task, "id": parent_id, "instances_created": created})

    task_id = create_scheduled_task(get_db(), task, data.recurrence)
    return jsonify({**task, "id": task_id})


@api.route('/scheduled-tasks/<int:task_id>', methods=['PUT'])
@require_auth
def update_task(task_id):
    values = update_values(parse_body(ScheduledTaskUpdate))
    update_row('scheduled_tasks', task_id, values)
    return jsonify({"success": True})


@api.route('/scheduled-tasks/<int:task_id>/move', methods=['PUT'])
@require_auth
def move_task(task_id):
    data = parse_body(MoveTaskRequest)
    db = get_db()
    task = db.get(f"SELECT * FROM scheduled_tasks WHERE id = {db.ph}", (task_id,))
    if not task:
        return jsonify({"error": "Task not found"}), 404

    try:
        placement = drop_task(task, data.slot)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    update_row('scheduled_tasks', task_id, placement)
    return jsonify({"success": True, **placement})


@api.route('/scheduled-tasks/<int:task_id>', methods=['DELETE'])
@require_auth
def delete_task(task_id):
    deleted = delete_scheduled_task(get_db(), task_id)
    return jsonify({"success": True, "deleted": deleted})


# Events

@api.route('/events', methods=['GET'])
@require_auth
def get_events():
    start, end = date_range_args()
    db = get_db()
    events = db.query(
        f"SELECT * FROM events WHERE date >= {db.ph} AND date <= {db.ph} ORDER BY date, start_time",
        (start, end),
    )
    return jsonify(events)


@api.route('/events', methods=['POST'])
@require_auth
def create_event():
    event = parse_body(EventCreate).model_dump()
    db = get_db()
    result = db.run(
        f"INSERT INTO events (title, description, date, start_time, end_time, type, color) "
        f"VALUES ({db.placeholders(7)})",
        (event['title'], event['description'], event['date'], event['start_time'],
         event['end_time'], event['type'], event['color']),
    )
    return jsonify({**event, "id": result.inserted_id})


@api.route('/events/<int:event_id>', methods=['PUT'])
@require_auth
def update_event(event_id):
    update_row('events', event_id, update_values(parse_body(EventUpdate)))
    return jsonify({"success": True})


@api.route('/events/<int:event_id>', methods=['DELETE'])
@require_auth
def delete_event(event_id):
    db = get_db()
    db.run(f"DELETE FROM events WHERE id = {db.ph}", (event_id,))
    return jsonify({"success": True})


# Weekly goals

@api.route('/weekly-goals/<week_start>', methods=['GET'])
@require_auth
def get_weekly_goals(week_start):
    db = get_db()
    goals = db.query(
        f"SELECT * FROM weekly_goals WHERE week_start = {db.ph} ORDER BY created_at, id",
        (week_start,),
    )
    return jsonify(goals)


@api.route('/weekly-goals', methods=['POST'])
@require_auth
def create_weekly_goal():
    goal = parse_body(WeeklyGoalCreate)
    db = get_db()
    completed = 1 if goal.completed else 0
    result = db.run(
        f"INSERT INTO weekly_goals (text, week_start, completed) VALUES ({db.placeholders(3)})",
        (goal.text, goal.week_start, completed),
    )
    return jsonify({"id": result.inserted_id, "text": goal.text,
                    "week_start": goal.week_start, "completed": completed})


@api.route('/weekly-goals/<int:goal_id>', methods=['PUT'])
@require_auth
def update_weekly_goal(goal_id):
    goal = parse_body(WeeklyGoalUpdate)
    update_row('weekly_goals', goal_id,
               {'text': goal.text, 'completed': 1 if goal.completed else 0}, touch=True)
    return jsonify({"success": True})


@api.route('/weekly-goals/<int:goal_id>', methods=['DELETE'])
@require_auth
def delete_weekly_goal(goal_id):
    db = get_db()
    db.run(f"DELETE FROM weekly_goals WHERE id = {db.ph}", (goal_id,))
    return jsonify({"success": True})


# Pulse notes

@api.route('/pulse-notes', methods=['GET'])
@require_auth
def get_pulse_notes():
    limit = request.args.get('limit', type=int)
    if not limit or limit < 1:
        limit = DEFAULT_NOTES_LIMIT
    db = get_db()
    notes = db.query(
        f"SELECT * FROM pulse_notes ORDER BY created_at DESC, id DESC LIMIT {db.ph}",
        (limit,),
    )
    return jsonify(notes)


@api.route('/pulse-notes', methods=['POST'])
@require_auth
def create_pulse_note():
    note = parse_body(PulseNoteCreate)
    db = get_db()
    result = db.run(f"INSERT INTO pulse_notes (content) VALUES ({db.ph})", (note.content,))
    return jsonify(db.get(f"SELECT * FROM pulse_notes WHERE id = {db.ph}", (result.inserted_id,)))


@api.route('/pulse-notes/<int:note_id>', methods=['DELETE'])
@require_auth
def delete_pulse_note(note_id):
    db = get_db()
    db.run(f"DELETE FROM pulse_notes WHERE id = {db.ph}", (note_id,))
    return jsonify({"success": True})


# Templates

@api.route('/templates', methods=['GET'])
@require_auth
def get_templates():
    return jsonify(get_db().query("SELECT * FROM templates ORDER BY created_at DESC, id DESC"))


@api.route('/templates/<int:template_id>', methods=['GET'])
@require_auth
def get_template(template_id):
    db = get_db()
    template = db.get(f"SELECT * FROM templates WHERE id = {db.ph}", (template_id,))
    if not template:
        return jsonify({"error": "Template not found"}), 404

    tasks = db.query(
        f"SELECT * FROM template_tasks WHERE template_id = {db.ph} ORDER BY day_of_week, start_time",
        (template_id,),
    )
    return jsonify({**template, "tasks": tasks})


@api.route('/templates', methods=['POST'])
@require_auth
def create_template():
    template = parse_body(TemplateCreate)
    db = get_db()
    result = db.run(f"INSERT INTO templates (name) VALUES ({db.ph})", (template.name,))
    return jsonify({"id": result.inserted_id, "name": template.name})


@api.route('/templates/<int:template_id>', methods=['DELETE'])
@require_auth
def delete_template(template_id):
    db = get_db()
    db.run(f"DELETE FROM template_tasks WHERE template_id = {db.ph}", (template_id,))
    db.run(f"DELETE FROM templates WHERE id = {db.ph}", (template_id,))
    return jsonify({"success": True})


@api.route('/templates/<int:template_id>/tasks', methods=['POST'])
@require_auth
def add_template_task(template_id):
    task = parse_body(TemplateTaskBody).model_dump()
    db = get_db()
    if not db.get(f"SELECT id FROM templates WHERE id = {db.ph}", (template_id,)):
        return jsonify({"error": "Template not found"}), 404

    result = db.run(
        f"INSERT INTO template_tasks (template_id, title, description, day_of_week, start_time, end_time, color) "
        f"VALUES ({db.placeholders(7)})",
        (template_id, task['title'], task['description'], task['day_of_week'],
         task['start_time'], task['end_time'], task['color']),
    )
    return jsonify({**task, "id": result.inserted_id, "template_id": template_id})


@api.route('/template-tasks/<int:task_id>', methods=['PUT'])
@require_auth
def update_template_task(task_id):
    update_row('template_tasks', task_id, parse_body(TemplateTaskBody).model_dump())
    return jsonify({"success": True})


@api.route('/template-tasks/<int:task_id>', methods=['DELETE'])
@require_auth
def delete_template_task(task_id):
    db = get_db()
    db.run(f"DELETE FROM template_tasks WHERE id = {db.ph}", (task_id,))
    return jsonify({"success": True})


@api.route('/templates/<int:template_id>/apply', methods=['POST'])
@require_auth
def apply_template_to_week(template_id):
    data = parse_body(ApplyTemplateRequest)
    tasks = apply_template(get_db(), template_id, data.week_start_date)
    if tasks is None:
        return jsonify({"error": "Template not found"}), 404
    return jsonify({"success": True, "tasks": tasks})


# Calendar layout

@api.route('/calendar-layout', methods=['GET'])
@require_auth
def get_calendar_layout():
    requested = request.args.get('weekStart')
    try:
        week_start = get_week_start(parse_date(requested) if requested else date.today())
    except ValueError:
        return jsonify({"error": "weekStart must be a date in YYYY-MM-DD format"}), 400

    db = get_db()
    week_end = add_days(week_start, 6)
    # The day before the week may hold tasks that run past midnight into it
    tasks = db.query(
        f"SELECT * FROM scheduled_tasks WHERE date >= {db.ph} AND date <= {db.ph} ORDER BY date, start_time",
        (format_date(add_days(week_start, -1)), format_date(week_end)),
    )
    events = db.query(
        f"SELECT * FROM events WHERE date >= {db.ph} AND date <= {db.ph} ORDER BY date, id",
        (format_date(week_start), format_date(week_end)),
    )
    return jsonify(layout_week(week_start, tasks, events))


# Blog: public

def get_published_post(post_id):
    db = get_db()
    return db.get(f"SELECT * FROM blog_posts WHERE id = {db.ph} AND published = 1", (post_id,))


@api.route('/blog-posts', methods=['GET'])
def get_blog_posts():
    db = get_db()
    theme = request.args.get('theme')
    if theme:
        posts = db.query(
            f"SELECT * FROM blog_posts WHERE published = 1 AND theme = {db.ph} ORDER BY date DESC, created_at DESC",
            (theme,),
        )
    else:
        posts = db.query("SELECT * FROM blog_posts WHERE published = 1 ORDER BY date DESC, created_at DESC")
    return jsonify(posts)


@api.route('/blog-posts/themes', methods=['GET'])
def get_blog_themes():
    rows = get_db().query(
        "SELECT DISTINCT theme FROM blog_posts "
        "WHERE published = 1 AND theme IS NOT NULL AND theme <> '' ORDER BY theme"
    )
    return jsonify([row['theme'] for row in rows])


@api.route('/blog-posts/<post_id>', methods=['GET'])
def get_blog_post(post_id):
    post = get_published_post(post_id)
    if not post:
        return jsonify({"error": "Blog post not found"}), 404
    return jsonify(post)


@api.route('/blog-posts/<post_id>/votes', methods=['GET'])
def get_blog_post_votes(post_id):
    db = get_db()
    counts = db.get(
        "SELECT "
        "SUM(CASE WHEN vote_type = 'upvote' THEN 1 ELSE 0 END) AS upvotes, "
        "SUM(CASE WHEN vote_type = 'downvote' THEN 1 ELSE 0 END) AS downvotes "
        f"FROM blog_post_votes WHERE post_id = {db.ph}",
        (post_id,),
    ) or {}
    upvotes = int(counts.get('upvotes') or 0)
    downvotes = int(counts.get('downvotes') or 0)
    return jsonify({"upvotes": upvotes, "downvotes": downvotes, "total": upvotes - downvotes})


@api.route('/blog-posts/<post_id>/my-vote', methods=['GET'])
def get_my_vote(post_id):
    db = get_db()
    vote = db.get(
        f"SELECT vote_type FROM blog_post_votes WHERE post_id = {db.ph} AND ip_address = {db.ph}",
        (post_id, client_ip()),
    )
    return jsonify({"vote": vote['vote_type'] if vote else None})


@api.route('/blog-posts/<post_id>/vote', methods=['POST'])
def submit_vote(post_id):
    try:
        data = parse_body(VoteRequest)
    except ValidationError:
        return jsonify({"error": "vote_type must be 'upvote' or 'downvote'"}), 400

    if not get_published_post(post_id):
        return jsonify({"error": "Blog post not found"}), 404

    db = get_db()
    db.run(
        f"INSERT INTO blog_post_votes (post_id, ip_address, vote_type) VALUES ({db.placeholders(3)}) "
        "ON CONFLICT (post_id, ip_address) DO UPDATE SET vote_type = excluded.vote_type",
        (post_id, client_ip(), data.vote_type),
    )
    return jsonify({"success": True, "vote": data.vote_type})


@api.route('/blog-posts/<post_id>/vote', methods=['DELETE'])
def remove_vote(post_id):
    db = get_db()
    result = db.run(
        f"DELETE FROM blog_post_votes WHERE post_id = {db.ph} AND ip_address = {db.ph}",
        (post_id, client_ip()),
    )
    return jsonify({"success": True, "removed": result.rows_affected})


# Blog: owner only

@api.route('/blog-posts-all', methods=['GET'])
@require_auth
def get_all_blog_posts():
    return jsonify(get_db().query("SELECT * FROM blog_posts ORDER BY date DESC, created_at DESC"))


@api.route('/blog-posts', methods=['POST'])
@require_auth
def create_blog_post():
    post = parse_body(BlogPostCreate)
    db = get_db()
    if db.get(f"SELECT id FROM blog_posts WHERE id = {db.ph}", (post.id,)):
        return jsonify({"error": "A blog post with this id already exists"}), 409

    db.run(
        f"INSERT INTO blog_posts (id, title, content, full_content, date, theme, published) "
        f"VALUES ({db.placeholders(7)})",
        (post.id, post.title, post.content, post.full_content, post.date, post.theme,
         1 if post.published else 0),
    )
    logger.info(f"Created blog post {post.id}")
    return jsonify(db.get(f"SELECT * FROM blog_posts WHERE id = {db.ph}", (post.id,)))


@api.route('/blog-posts/<post_id>', methods=['PUT'])
@require_auth
def update_blog_post(post_id):
    values = update_values(parse_body(BlogPostUpdate))
    if not update_row('blog_posts', post_id, values, touch=True):
        return jsonify({"error": "Blog post not found"}), 404
    return jsonify({"success": True})


@api.route('/blog-posts/<post_id>', methods=['DELETE'])
@require_auth
def delete_blog_post(post_id):
    db = get_db()
    db.run(f"DELETE FROM blog_post_votes WHERE post_id = {db.ph}", (post_id,))
    result = db.run(f"DELETE FROM blog_posts WHERE id = {db.ph}", (post_id,))
    if not result.rows_affected:
        return jsonify({"error": "Blog post not found"}), 404
    return jsonify({"success": True})


# Error handling

def format_validation_error(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        field = '.'.join(str(part) for part in item['loc']) or 'body'
        messages.append(f"{field}: {item['msg']}")
    return '; '.join(messages)


def register_error_handlers(app):
    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limited(e):
        logger.warning(f"Login throttled for {client_ip()}")
        return jsonify({"error": throttled_message()}), 429

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"error": format_validation_error(e)}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        logger.exception(f"Unhandled error on {request.method} {request.path}: {e}")
        return jsonify({"error": "Internal server error"}), 500


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    if not app.config.get('PASSWORD'):
        logger.error("ERROR: PASSWORD environment variable is not set!")
        logger.error("Please set PASSWORD in your environment before starting the server.")
        sys.exit(1)

    if not app.config.get('JWT_SECRET'):
        logger.warning("JWT_SECRET is not set; tokens will be signed with a temporary per-process secret")
        app.config['JWT_SECRET'] = fallback_jwt_secret()

    proxies = app.config['TRUSTED_PROXIES']
    if proxies:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxies)

    origins = app.config['CORS_ORIGINS']
    if origins != '*':
        origins = [o.strip() for o in origins.split(',') if o.strip()]
    CORS(app, resources={r"/api/*": {"origins": origins}})

    database = app.config.get('DATABASE') or connect_database(app.config)
    database.init_db()
    app.extensions['database'] = database
    limiter.init_app(app)

    app.register_blueprint(api)
    register_error_handlers(app)
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=app.config['PORT'], debug=app.config['APP_ENV'] != 'production')
