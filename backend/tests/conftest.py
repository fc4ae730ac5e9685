import os, sys, pytest
# Ensure the backend directory is on path so 'repairshop' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from repairshop import create_app, get_db
from repairshop.models.user import Base
# Import all model modules to ensure tables are registered before create_all
import repairshop.models.inventory  # noqa: F401
import repairshop.models.repair_order  # noqa: F401
import repairshop.models.payment  # noqa: F401
import repairshop.models.audit  # noqa: F401


@pytest.fixture(scope='session', autouse=True)
def app_instance(tmp_path_factory):
    upload_dir = tmp_path_factory.mktemp('uploads')
    app = create_app({
        'TESTING': True,
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': 'test-secret',
        'UPLOAD_FOLDER': str(upload_dir),
        'MAIL_SUPPRESS_SEND': True,
        'MAIL_DEFAULT_SENDER': 'no-reply@example.com',
    })
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_context):
    return app_context.test_client()
