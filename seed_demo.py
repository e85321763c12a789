# seed_demo.py
#
# Start the service with admin registration enabled first:
#   ALLOW_ADMIN_REGISTRATION=true python -m library_service.app
import requests

BASE_URL = "http://localhost:3000"

ADMIN = {
    "email": "librarian@example.com",
    "password": "admin-pass",
    "name": "Head Librarian",
    "role": "ADMIN",
}

STUDENTS = [
    {"email": "asha@example.com", "password": "student-pass", "name": "Asha Patil", "phone": "9800000001"},
    {"email": "rohan@example.com", "password": "student-pass", "name": "Rohan Kulkarni", "phone": "9800000002"},
    {"email": "meera@example.com", "password": "student-pass", "name": "Meera Joshi", "phone": "9800000003"},
]

BOOKS = [
    {
        "isbn": "978-0132350884",
        "title": "Clean Code",
        "author": "Robert C. Martin",
        "publisher": "Prentice Hall",
        "category": "Software Engineering",
    },
    {
        "isbn": "978-0201616224",
        "title": "The Pragmatic Programmer",
        "author": "Andrew Hunt, David Thomas",
        "publisher": "Addison-Wesley",
        "category": "Software Engineering",
    },
    {
        "isbn": "978-0131103627",
        "title": "The C Programming Language",
        "author": "Brian W. Kernighan, Dennis M. Ritchie",
        "publisher": "Prentice Hall",
        "category": "Programming Languages",
    },
    {
        "isbn": "978-0262033848",
        "title": "Introduction to Algorithms",
        "author": "Cormen, Leiserson, Rivest, Stein",
        "publisher": "MIT Press",
        "category": "Data Structures & Algorithms",
    },
    {
        "isbn": "978-1491950357",
        "title": "Designing Data-Intensive Applications",
        "author": "Martin Kleppmann",
        "publisher": "O'Reilly Media",
        "category": "Databases",
    },
    {
        "isbn": "978-0135974445",
        "title": "Operating System Concepts",
        "author": "Silberschatz, Galvin, Gagne",
        "publisher": "Wiley",
        "category": "Operating Systems",
    },
]


def check_service(url):
    """Hit /api/health and return True/False."""
    health_url = f"{url.rstrip('/')}/api/health"
    try:
        r = requests.get(health_url, timeout=3)
        print(f"[CHECK] {health_url} -> {r.status_code}")
        return r.ok
    except requests.RequestException as e:
        print(f"[ERROR] Service not reachable at {health_url}: {e}")
        return False


def get_token(account):
    """Register ``account``, or log in if the email is already taken."""
    resp = requests.post(f"{BASE_URL}/api/auth/register", json=account, timeout=5)
    if resp.status_code == 400 and resp.json().get("code") == "email_taken":
        resp = requests.post(
            f"{BASE_URL}/api/auth/login",
            json={"email": account["email"], "password": account["password"]},
            timeout=5,
        )
    print(f"  {account['email']}: {resp.status_code}")
    if not resp.ok:
        print(f"      Body: {resp.text.strip()}")
        return None, None
    body = resp.json()
    return body["token"], body["user"]


def seed_books(token):
    print("\n== Adding books ==")
    headers = {"Authorization": f"Bearer {token}"}

    for i, book in enumerate(BOOKS, start=1):
        payload = dict(book)
        # vary copies per title to make availability more interesting
        payload["quantity"] = 1 + (i % 3)  # 1-3 copies

        resp = requests.post(f"{BASE_URL}/api/books", headers=headers, json=payload, timeout=5)
        print(f"  [{i:02}] {book['title']} -> {resp.status_code}")
        if not resp.ok:
            print(f"      Body: {resp.text.strip()}")


def main():
    # 0) Make sure the service is up
    print("Checking library service...")
    if not check_service(BASE_URL):
        print("\nLibrary service is not reachable. Make sure it is running on 3000.")
        return

    # 1) Admin account
    print("\n== Admin ==")
    admin_token, admin = get_token(ADMIN)
    if not admin_token:
        return
    if admin["role"] != "ADMIN":
        print("\nThe admin account was created as a STUDENT.")
        print("Restart the service with ALLOW_ADMIN_REGISTRATION=true and use a new email.")
        return

    # 2) Students
    print("\n== Students ==")
    for student in STUDENTS:
        get_token(student)

    # 3) Catalog
    seed_books(admin_token)

    # 4) Small hint for you
    print("\nDone.")
    print("Try hitting (with the admin token):")
    print(f"  {BASE_URL}/api/books")
    print(f"  {BASE_URL}/api/dashboard/stats")


if __name__ == "__main__":
    main()
