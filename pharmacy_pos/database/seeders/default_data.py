def seed(conn):
    # if no operators exist, create an admin and a demo cashier
    row = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()
    if row and row["n"] == 0:
        conn.executemany(
            "INSERT INTO users(username, full_name, role, is_active) VALUES (?, ?, ?, 1)",
            [
                ("admin", "Administrator", "admin"),
                ("cashier", "Cashier User", "user"),
            ],
        )
        conn.commit()
