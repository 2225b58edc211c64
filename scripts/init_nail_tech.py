import os

from dotenv import load_dotenv


# ======================================================
# ENV
# ======================================================

load_dotenv()

NAIL_TECH_NAME = os.getenv("DEFAULT_NAIL_TECH_NAME", "Owner")

# settings are read on import, after .env is loaded
from nailbook.database import SessionLocal, engine  # noqa: E402
from nailbook.models.entities import Base, NailTechs  # noqa: E402


# ======================================================
# MAIN LOGIC
# ======================================================

def main():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        existing = db.query(NailTechs).filter(NailTechs.is_default == 1).first()
        if existing:
            print(f"[BOOTSTRAP] Default nail tech exists: {existing.name} (id={existing.id})")
            return

        tech = NailTechs(name=NAIL_TECH_NAME, is_default=1, is_active=1)
        db.add(tech)
        db.commit()
        print(f"[BOOTSTRAP] Default nail tech created: {tech.name} (id={tech.id})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
