from fixtures.elastic import *  # noqa: F401, F403
from fixtures.entities import *  # noqa: F401, F403
from fixtures.storages import *  # noqa: F401, F403
