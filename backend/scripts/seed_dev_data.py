from app.application.services.api_key_service import create_api_key
from app.application.services.environment_service import create_environment
from app.application.services.flag_service import create_flag, set_environment_value
from app.infrastructure.db.repository import SqlAlchemyRepository
from app.infrastructure.db.session import SessionLocal

DEFAULT_ENVIRONMENTS = [("development", 1), ("staging", 2), ("production", 3)]
DEFAULT_FLAGS = [
    ("new_checkout", "SWITCH", "Checkout v2", {"development": "true", "staging": "true", "production": "false"}),
    ("search_page_size", "INTEGER", "Results per search page", {"development": "50", "production": "20"}),
    ("recommendation_weight", "FLOAT", "Blend factor for recommendations", {"staging": "0.75"}),
    ("support_banner", "STRING", "Text of the support banner", {"production": None}),
]
DEFAULT_API_KEY_DESCRIPTION = "Local development"


def seed_dev_data() -> None:
    with SessionLocal() as db:
        repository = SqlAlchemyRepository(db)
        if repository.find("ApiKey", {"description": DEFAULT_API_KEY_DESCRIPTION}):
            print("Seed exists: nothing to do")
            return

        environments = {}
        for name, sort_order in DEFAULT_ENVIRONMENTS:
            existing = repository.find("Environment", {"name": name})
            environments[name] = existing[0] if existing else create_environment(repository, name=name, sort_order=sort_order)

        for name, flag_type, description, values in DEFAULT_FLAGS:
            existing = repository.find("Flag", {"name": name})
            flag = existing[0] if existing else create_flag(repository, name=name, flag_type=flag_type, description=description)
            for environment_name, value in values.items():
                set_environment_value(repository, flag, environments[environment_name], value=value)

        api_key = create_api_key(repository, description=DEFAULT_API_KEY_DESCRIPTION)

        print("Created dev seed data:")
        print(f"- environments: {', '.join(environments)}")
        print(f"- flags: {', '.join(name for name, *_ in DEFAULT_FLAGS)}")
        print(f"- api_key: {api_key.token}")


if __name__ == "__main__":
    seed_dev_data()
