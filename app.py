# app.py
"""
Entrypoint da aplicação.

Uso:
  python app.py migrate --db atelie.db
  python app.py material listar
  python app.py produto simular 1 -m 30 -m 50
  python app.py venda criar -i 1:3 --cliente "Ana"
  python app.py rel resumo
  python app.py backup auto
"""

from atelie.adapters.cli import main

if __name__ == "__main__":
    main()
