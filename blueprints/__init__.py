"""
Blueprint registration for EduConnect.

Every blueprint carries its own /api prefix; the auth blueprint is
registered separately by create_app().
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.core import bp as core_bp
    from blueprints.admin import bp as admin_bp
    from blueprints.grades import bp as grades_bp
    from blueprints.teacher import bp as teacher_bp
    from blueprints.parent import bp as parent_bp
    from blueprints.notifications import bp as notifications_bp
    from blueprints.export import bp as export_bp

    app.register_blueprint(core_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(grades_bp)
    app.register_blueprint(teacher_bp)
    app.register_blueprint(parent_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(export_bp)
