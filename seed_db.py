from database import SessionLocal, engine
import models

SAMPLE_PROJECTS = [
    {"code": "24ABCXYZ01", "client": "Comune di Piacenza", "city": "Piacenza",
     "object": "Ponte sul Po", "year": 2024, "template": "BREVE"},
    {"code": "24DEFUVW02", "client": "Provincia di Cremona", "city": "Cremona",
     "object": "Ristrutturazione scuola elementare", "year": 2024, "template": "LUNGO"},
    {"code": "25GHIRST03", "client": "Privato", "city": "Città di Castello",
     "object": "Villa unifamiliare", "year": 2025, "template": "LUNGO"},
]


def seed_data():
    # Sample projects are for local development only
    if "sqlite" not in str(engine.url):
        print("Skipping sample projects: not a local SQLite database.")
        return

    db = SessionLocal()
    try:
        print("Seeding sample projects...")
        for data in SAMPLE_PROJECTS:
            if db.query(models.Project).filter_by(code=data["code"]).first():
                continue
            db.add(models.Project(**data))
        db.commit()
        print("Seeding complete.")
    finally:
        db.close()


if __name__ == "__main__":
    seed_data()
