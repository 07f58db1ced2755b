"""
Alembic environment for Flask-Migrate: reuses the application's engine and
model metadata, so ``flask db upgrade`` and ``flask db migrate`` see the same
database URL and tables as the running app.
"""
from alembic import context
from flask import current_app

# Import every ORM model so that db.metadata knows about all tables.
import models  # noqa: F401

target_metadata = current_app.extensions["migrate"].db.metadata


def run_migrations_offline():
    context.configure(
        url=current_app.config["SQLALCHEMY_DATABASE_URI"],
        target_metadata=target_metadata,
        literal_binds=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = current_app.extensions["migrate"].db.engine
    with connectable.connect() as conn:
        context.configure(
            connection=conn,
            target_metadata=target_metadata,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
