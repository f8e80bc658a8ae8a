from datetime import datetime, timedelta

from lavajato.models import Cliente, Servico, SolicitacaoExclusao

NOVO = {
    "carro": "Onix",
    "placa": "bra2e19",
    "nome_cliente": "Fernanda",
    "telefone": "(11) 98888-7777",
    "servico": "Lavagem simples",
    "valor": 35.5,
}


def test_create_servico(client, db, users, func_headers):
    r = client.post("/api/servicos", json=NOVO, headers=func_headers)

    assert r.status_code == 201
    servico = r.json()["servico"]
    assert servico["placa"] == "BRA2E19"
    assert servico["telefone"] == "+5511988887777"
    assert servico["status"] == "em_andamento"
    assert servico["funcionario_id"] == users["func"].id
    assert servico["valor"] == 35.5
    cliente = db.query(Cliente).filter_by(telefone="+5511988887777").one()
    assert cliente.nome == "Fernanda"


def test_create_servico_validation(client, users, func_headers):
    assert client.post("/api/servicos", json={**NOVO, "valor": -1}, headers=func_headers).status_code == 400
    assert client.post("/api/servicos", json={**NOVO, "carro": "  "}, headers=func_headers).status_code == 400
    assert client.post("/api/servicos", json={**NOVO, "status": "concluido"}, headers=func_headers).status_code == 400
    missing = dict(NOVO)
    del missing["servico"]
    r = client.post("/api/servicos", json=missing, headers=func_headers)
    assert r.status_code == 400
    assert "servico" in r.json()["detail"]


def test_same_phone_reuses_client(client, db, users, func_headers):
    client.post("/api/servicos", json=NOVO, headers=func_headers)
    client.post("/api/servicos", json={**NOVO, "nome_cliente": "Fernanda Souza", "telefone": "+55 11 98888-7777"}, headers=func_headers)

    clientes = db.query(Cliente).all()
    assert len(clientes) == 1
    assert clientes[0].nome == "Fernanda Souza"


def test_employee_only_sees_own_services(client, users, make_servico, func_headers, admin_headers):
    own = make_servico(users["func"])
    other = make_servico(users["func2"], placa="XYZ9A87")

    mine = client.get("/api/servicos", headers=func_headers).json()
    assert [s["id"] for s in mine["servicos"]] == [own.id]
    assert client.get(f"/api/servicos/{other.id}", headers=func_headers).status_code == 404

    everything = client.get("/api/servicos", headers=admin_headers).json()
    assert everything["pagination"]["total_items"] == 2
    filtered = client.get(f"/api/servicos?funcionario_id={users['func2'].id}", headers=admin_headers).json()
    assert [s["id"] for s in filtered["servicos"]] == [other.id]
    assert filtered["servicos"][0]["funcionario_nome"] == "Maria"


def test_list_filters_by_date_range(client, users, make_servico, admin_headers):
    old = make_servico(users["func"], data=datetime(2024, 1, 10, 15, 0))
    make_servico(users["func"], data=datetime(2024, 2, 1, 9, 0))

    r = client.get("/api/servicos?data_inicio=2024-01-01&data_fim=2024-01-10", headers=admin_headers).json()

    assert [s["id"] for s in r["servicos"]] == [old.id]
    assert r["pagination"] == {"current_page": 1, "total_pages": 1, "total_items": 1, "items_per_page": 10}


def test_update_servico(client, users, make_servico, func_headers, func2_headers, admin_headers):
    servico = make_servico(users["func"], status="em_andamento")

    r = client.put(f"/api/servicos/{servico.id}", json={"status": "finalizado", "valor": 80}, headers=func_headers)
    assert r.status_code == 200
    assert r.json()["servico"]["status"] == "finalizado"
    assert r.json()["servico"]["valor"] == 80.0

    assert client.put(f"/api/servicos/{servico.id}", json={"valor": 1}, headers=func2_headers).status_code == 404
    assert client.put(f"/api/servicos/{servico.id}", json={}, headers=admin_headers).status_code == 400
    assert client.put(f"/api/servicos/{servico.id}", json={"carro": None}, headers=admin_headers).status_code == 400


def test_admin_delete_is_direct_and_clears_pending_requests(client, db, users, make_servico, func_headers, admin_headers):
    servico_id = make_servico(users["func"]).id
    client.post("/api/deletion-requests", json={"serviceId": servico_id}, headers=func_headers)

    r = client.delete(f"/api/servicos/{servico_id}", headers=admin_headers)

    assert r.status_code == 200
    assert r.json()["deleted_service"]["id"] == servico_id
    assert client.get(f"/api/servicos/{servico_id}", headers=admin_headers).status_code == 404
    db.expire_all()
    assert db.query(SolicitacaoExclusao).filter_by(servico_id=servico_id).count() == 0


def test_employee_delete_opens_request(client, users, make_servico, func_headers, func2_headers):
    servico = make_servico(users["func"])

    r = client.delete(f"/api/servicos/{servico.id}?motivo=cadastro duplicado", headers=func_headers)

    assert r.status_code == 201
    assert r.json()["request"]["motivo"] == "cadastro duplicado"
    assert client.get(f"/api/servicos/{servico.id}", headers=func_headers).status_code == 200
    assert client.delete(f"/api/servicos/{servico.id}", headers=func_headers).status_code == 409
    assert client.delete(f"/api/servicos/{servico.id}", headers=func2_headers).status_code == 403


def test_estatisticas(client, users, make_servico, admin_headers, func_headers):
    make_servico(users["func"], servico="Lavagem simples", valor=30)
    make_servico(users["func"], servico="Lavagem simples", valor=30)
    make_servico(users["func2"], servico="Polimento", valor=200)
    make_servico(users["func2"], servico="Polimento", valor=200, data=datetime.utcnow() - timedelta(days=60))

    assert client.get("/api/servicos/estatisticas", headers=func_headers).status_code == 403
    r = client.get("/api/servicos/estatisticas?periodo=mes", headers=admin_headers)

    assert r.status_code == 200
    body = r.json()
    assert body["periodo"] == "month"
    assert body["total_servicos"] == 3
    assert body["total_receita"] == 260.0
    assert body["servicos_por_tipo"][0] == {"servico": "Lavagem simples", "quantidade": 2, "receita": 60.0}
    assert sum(d["servicos"] for d in body["receita_diaria"]) == 3

    total = client.get("/api/servicos/estatisticas?periodo=total", headers=admin_headers).json()
    assert total["total_servicos"] == 4


def test_overlong_fields_are_400(client, db, users, make_servico, func_headers):
    for campo, tamanho in (("carro", 121), ("servico", 121), ("nome_cliente", 256), ("placa", 11)):
        r = client.post("/api/servicos", json={**NOVO, campo: "x" * tamanho}, headers=func_headers)
        assert r.status_code == 400, campo
    # texto que não é telefone e não cabe na coluna
    r = client.post("/api/servicos", json={**NOVO, "telefone": "ligar depois das seis horas"}, headers=func_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "Telefone inválido"
    assert client.get("/api/servicos", headers=func_headers).json()["pagination"]["total_items"] == 0

    servico = make_servico(users["func"])
    assert client.put(f"/api/servicos/{servico.id}", json={"carro": "x" * 121}, headers=func_headers).status_code == 400
    r = client.put(f"/api/servicos/{servico.id}", json={"telefone": "ligar depois das seis horas"}, headers=func_headers)
    assert r.status_code == 400
    db.expire_all()
    assert db.get(Servico, servico.id).telefone == "+5511988887777"
