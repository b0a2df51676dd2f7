"""Static knowledge base served to the assistant.

Entries are ordered; retrieval ties keep this order.
"""

from __future__ import annotations

from typing import Tuple

from admissions_chat.domain.schemas import KnowledgeEntry

KNOWLEDGE_BASE: Tuple[KnowledgeEntry, ...] = (
    KnowledgeEntry(
        id="kb-admissions-requirements",
        title="Admission Requirements",
        keywords=("admission", "requirements", "entry", "apply", "qualifications", "grades"),
        text=(
            "Undergraduate applicants need three A-levels at grades BBB or equivalent, "
            "or an accredited Access to Higher Education diploma. Postgraduate applicants "
            "need a 2:1 honours degree in a related subject. Mature applicants without "
            "formal qualifications are assessed individually through an interview."
        ),
    ),
    KnowledgeEntry(
        id="kb-application-process",
        title="How to Apply",
        keywords=("application", "apply", "deadline", "ucas", "process", "documents"),
        text=(
            "Undergraduate applications are made through UCAS. The January equal-consideration "
            "deadline applies to most courses. Postgraduate applications are submitted directly "
            "through the Havana College online portal with a personal statement, transcripts and "
            "two references. Decisions are usually issued within four weeks."
        ),
    ),
    KnowledgeEntry(
        id="kb-tuition-fees",
        title="Tuition Fees",
        keywords=("tuition", "fees", "cost", "price", "payment", "instalments"),
        text=(
            "Home undergraduate tuition is 9,250 GBP per year. International undergraduate "
            "tuition is 18,500 GBP per year. Postgraduate taught programmes range from "
            "11,000 GBP to 21,000 GBP. Fees can be paid in three instalments across the "
            "academic year."
        ),
    ),
    KnowledgeEntry(
        id="kb-scholarships",
        title="Scholarships and Financial Support",
        keywords=("scholarship", "scholarships", "bursary", "funding", "financial", "loan"),
        text=(
            "Havana College offers merit scholarships of up to 3,000 GBP and a hardship bursary "
            "for students with household income below 25,000 GBP. Home students can apply for "
            "tuition and maintenance loans through Student Finance England."
        ),
    ),
    KnowledgeEntry(
        id="kb-courses",
        title="Courses and Programmes",
        keywords=("courses", "course", "programmes", "degree", "subjects", "study"),
        text=(
            "We offer undergraduate and postgraduate programmes in Computer Science, Business "
            "Management, Psychology, Digital Media, Law and Nursing. Most undergraduate degrees "
            "last three years, with an optional placement year."
        ),
    ),
    KnowledgeEntry(
        id="kb-international-students",
        title="International Students and Visas",
        keywords=("international", "visa", "english", "ielts", "overseas", "cas"),
        text=(
            "International students need a Student visa. After an unconditional offer and deposit "
            "we issue a Confirmation of Acceptance for Studies (CAS). The minimum English "
            "requirement is IELTS 6.0 overall with no component below 5.5."
        ),
    ),
    KnowledgeEntry(
        id="kb-accommodation",
        title="Student Accommodation",
        keywords=("accommodation", "housing", "halls", "rent", "living", "residence"),
        text=(
            "First-year students are guaranteed a room in college halls if they apply by 30 June. "
            "Weekly rent ranges from 180 GBP for a shared flat to 245 GBP for an en-suite studio, "
            "including bills and Wi-Fi."
        ),
    ),
    KnowledgeEntry(
        id="kb-campus-location",
        title="Campus Location and Facilities",
        keywords=("campus", "location", "london", "library", "facilities", "transport"),
        text=(
            "The campus is in central London, a five minute walk from the Underground. Facilities "
            "include a 24-hour library, computer labs, a media studio and a student union. "
            "Open days run every month."
        ),
    ),
    KnowledgeEntry(
        id="kb-term-dates",
        title="Term Dates and Intakes",
        keywords=("term", "dates", "intake", "semester", "start", "enrolment"),
        text=(
            "The main intake starts in late September with a January intake for selected "
            "postgraduate courses. Enrolment week runs the week before teaching begins."
        ),
    ),
    KnowledgeEntry(
        id="kb-contact-admissions",
        title="Contacting the Admissions Office",
        keywords=("contact", "admissions", "office", "email", "phone", "hours"),
        text=(
            "The admissions office is open Monday to Friday, 9am to 5pm UK time. Email "
            "admissions@havanacollege.ac.uk or book a call with an adviser through the chat."
        ),
    ),
)
