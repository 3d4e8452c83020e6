from seed import PERSONAS, PRODUCTS, seed
from threadnotion.entities import Conversation, Persona, Product


def test_seed_replaces_existing_catalogue(backend):
    seed(backend.Session)
    products, personas = seed(backend.Session)

    session = backend.Session()
    try:
        assert session.query(Product).count() == len(PRODUCTS) == 5
        assert session.query(Persona).count() == len(PERSONAS) == 5
        assert {p.name for p in personas} == {
            "Budget-conscious Brenda",
            "Decisive David",
            "Skeptical Sarah",
            "Trendy Taylor",
            "Quality-focused Quinn",
        }
        assert session.get(Product, products[0].id).sku == "COAT-CASH-001"
    finally:
        session.close()


def test_seed_clears_conversations(backend, catalogue):
    session = backend.Session()
    session.add(Conversation(persona_id=catalogue["personas"]["Decisive David"]))
    session.commit()
    session.close()

    seed(backend.Session)

    session = backend.Session()
    try:
        assert session.query(Conversation).count() == 0
    finally:
        session.close()
