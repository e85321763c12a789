import enum
from datetime import date

from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy import (
    Column,
    String,
    Integer,
    Date,
    Boolean,
    Numeric,
    Enum,
    ForeignKey,
    CheckConstraint,
    Index,
    text,
)

Base = declarative_base()


VALID_CATEGORIES = [
    "Programming Languages",
    "Data Structures & Algorithms",
    "Operating Systems",
    "Artificial Intelligence & Machine Learning",
    "Databases",
    "Cybersecurity",
    "Software Engineering",
    "Digital Electronics",
    "Signal Processing",
    "Communication Systems",
    "VLSI Design",
    "Embedded Systems",
    "Circuit Theory",
    "Power Systems",
    "Control Systems",
    "Electrical Machines",
    "Renewable Energy",
    "Thermodynamics",
    "Fluid Mechanics",
    "Manufacturing Processes",
    "Robotics",
    "CAD/CAM",
    "Structural Engineering",
    "Transportation Engineering",
    "Surveying",
    "Construction Management",
    "Environmental Engineering",
    "Web Development",
    "Mobile App Development",
    "Cloud Computing",
    "Data Analytics",
    "Human-Computer Interaction",
    "Discrete Mathematics",
    "Engineering Mathematics",
    "Physics",
    "Chemistry",
    "Statistics",
    "Communication Skills",
    "Professional Ethics",
    "Economics for Engineers",
    "Psychology",
    "Soft Skills",
    "Reference Books",
    "Project Reports / Theses",
    "Journals & Magazines",
    "E-Books & Online Resources",
    "Competitive Exam Materials (GATE, GRE, etc.)",
    "Research Papers",
    "Previous Year Question Papers",
]


class Role(enum.Enum):
    STUDENT = "STUDENT"
    ADMIN = "ADMIN"


class PaymentStatus(enum.Enum):
    PENDING = "PENDING"
    FAILED = "FAILED"
    PAID = "PAID"


OPEN_LOAN_INDEX = "uq_issue_records_open_book"


def _iso(value):
    return value.isoformat() if value is not None else None


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(20), primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(50))
    role = Column(Enum(Role, name="user_role"), nullable=False, default=Role.STUDENT)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "role": self.role.value,
        }


class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_books_quantity_non_negative"),
    )

    book_id = Column(String(20), primary_key=True)
    title = Column(String(255), nullable=False)
    isbn = Column(String(20), unique=True, nullable=False)
    author = Column(String(255), nullable=False)
    publisher = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False)
    # copies currently lendable
    quantity = Column(Integer, nullable=False, default=1)

    def to_dict(self):
        return {
            "book_id": self.book_id,
            "title": self.title,
            "isbn": self.isbn,
            "author": self.author,
            "publisher": self.publisher,
            "category": self.category,
            "quantity": self.quantity,
        }


class Payment(Base):
    """
    A monetary obligation of a user. Late returns create these automatically;
    users can also open one themselves. Status changes are manual.
    """
    __tablename__ = "payments"

    payment_id = Column(String(20), primary_key=True)
    user_id = Column(String(20), ForeignKey("users.user_id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    description = Column(String(255))
    payment_method = Column(String(50))
    transaction_id = Column(String(100))

    def to_dict(self):
        return {
            "payment_id": self.payment_id,
            "user_id": self.user_id,
            "amount": str(self.amount),
            "status": self.status.value,
            "description": self.description,
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
        }


class IssueRecord(Base):
    """
    One book lent to one user. Open while ``returned`` is false; returning
    is terminal. ``payment_id`` points at the late-return fine, if any.
    """
    __tablename__ = "issue_records"
    __table_args__ = (
        # at most one open loan per book
        Index(
            OPEN_LOAN_INDEX,
            "book_id",
            unique=True,
            sqlite_where=text("NOT returned"),
            postgresql_where=text("NOT returned"),
        ),
    )

    issue_record_id = Column(String(20), primary_key=True)
    user_id = Column(String(20), ForeignKey("users.user_id"), nullable=False)
    book_id = Column(String(20), ForeignKey("books.book_id"), nullable=False)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    return_date = Column(Date)
    returned = Column(Boolean, nullable=False, default=False)
    payment_id = Column(String(20), ForeignKey("payments.payment_id"))

    user = relationship("User", lazy="selectin")
    book = relationship("Book", lazy="selectin")
    payment = relationship("Payment", lazy="selectin")

    def is_overdue(self, today=None):
        today = today or date.today()
        return not self.returned and self.due_date < today

    def status(self, today=None):
        if self.returned:
            return "RETURNED"
        return "OVERDUE" if self.is_overdue(today) else "ISSUED"

    def to_dict(self, today=None):
        return {
            "issue_record_id": self.issue_record_id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "issue_date": _iso(self.issue_date),
            "due_date": _iso(self.due_date),
            "return_date": _iso(self.return_date),
            "returned": self.returned,
            "payment_id": self.payment_id,
            "status": self.status(today),
            "user": {
                "user_id": self.user.user_id,
                "name": self.user.name,
                "email": self.user.email,
            }
            if self.user
            else None,
            "book": {
                "book_id": self.book.book_id,
                "title": self.book.title,
                "author": self.book.author,
                "category": self.book.category,
            }
            if self.book
            else None,
            "payment": {
                "payment_id": self.payment.payment_id,
                "amount": str(self.payment.amount),
                "status": self.payment.status.value,
            }
            if self.payment
            else None,
        }


class LostDamagedBook(Base):
    """
    Copies of a book taken out of circulation. The recorded quantity has
    already been subtracted from the book's available quantity.
    """
    __tablename__ = "lost_damaged_books"

    lost_damaged_book_id = Column(String(20), primary_key=True)
    book_id = Column(String(20), ForeignKey("books.book_id"), unique=True, nullable=False)
    quantity = Column(Integer, nullable=False)

    book = relationship("Book", lazy="selectin")

    def to_dict(self):
        return {
            "lost_damaged_book_id": self.lost_damaged_book_id,
            "book_id": self.book_id,
            "quantity": self.quantity,
            "book": {
                "book_id": self.book.book_id,
                "title": self.book.title,
                "author": self.book.author,
                "category": self.book.category,
                "isbn": self.book.isbn,
                "publisher": self.book.publisher,
            }
            if self.book
            else None,
        }
